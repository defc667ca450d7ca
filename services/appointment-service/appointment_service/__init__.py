"""Appointment scheduling service: availability, booking and reminders."""
