"""Notification dispatch and delivery-tracking application."""
