# Security Package
# Encrypted-at-rest storage for tokens and keys

"""
Security components for dayline.

Components:
- vault.py - Encrypted secret store (AES-256-GCM)
"""
