"""
Feature modules (auth, users, otp).
"""
