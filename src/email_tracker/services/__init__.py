"""Tracking services: recording, notifications, statistics and link rewriting."""
