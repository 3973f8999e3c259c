"""Sending-side client: local replica, sync engine and message contract."""
