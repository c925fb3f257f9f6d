"""Twilio browser dialer with mid-call voicemail drop."""
