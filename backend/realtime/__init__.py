"""
Outbound driver and passenger notifications.

This package provides:
- Channel-layer events for ride updates (driver_<id>, user_<id>, ride_<id> groups)
- Firebase Cloud Messaging push for drivers

Key Components:
    - notifications.py: Ride and overtime event helpers
    - push.py: FCM HTTP client

Usage:
    from realtime.notifications import notify_driver_event, notify_passenger_event
    from realtime.notifications import notify_overtime_charge
    from realtime.push import send_push_to_driver
"""
