"""Relay, aggregation, profile and submission services."""
