"""
Realtime event delivery over the Channels layer.

Groups:
    - driver_<user_id>: events for one driver
    - user_<user_id>: events for one rider
    - ride_<ride_id>: status events for everyone watching a ride
    - earnings_ledger: completed-ride breakdowns for accounting

Usage:
    from realtime.notifications import notify_driver_event, notify_rider_event
"""
