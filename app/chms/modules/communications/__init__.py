"""
Communications module.

Notifications and group messages are stored as communications; per-recipient
deliveries (Email/SMS/InApp) are queued and drained by scripts/send_communications.py
through the email and SMS gateways.
"""
