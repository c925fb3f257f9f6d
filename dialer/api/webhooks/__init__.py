"""Twilio webhook routers."""
