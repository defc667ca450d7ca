from datetime import datetime, timezone

from icalendar import Calendar, Event, vCalAddress, vText

from .domain import Booking, BookingStatus, UserRecord

PRODID = "-//Appointment Service//appointments//EN"
ORGANIZER_EMAIL = "no-reply@appointments.local"


def _attendee(user: UserRecord) -> vCalAddress:
    attendee = vCalAddress(f"MAILTO:{user.email}")
    attendee.params["cn"] = vText(user.name)
    attendee.params["role"] = vText("REQ-PARTICIPANT")
    attendee.params["partstat"] = vText("ACCEPTED")
    attendee.params["rsvp"] = vText("TRUE")
    return attendee


def booking_to_ics(booking: Booking, provider: UserRecord, requester: UserRecord) -> bytes:
    """Render one booking as an RFC 5545 calendar with a single VEVENT.

    Booking times are already UTC and minute-precise, so no lookup or
    timezone block is needed.
    """
    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("method", "PUBLISH")

    event = Event()
    event.add("uid", f"{booking.booking_id}@appointments")
    event.add("summary", f"Appointment: {requester.name} & {provider.name}")
    event.add("description", booking.note or "")
    event.add("dtstart", booking.interval.start.astimezone(timezone.utc))
    event.add("dtend", booking.interval.end.astimezone(timezone.utc))
    event.add("dtstamp", datetime.now(timezone.utc))
    event.add(
        "status",
        "CANCELLED" if booking.status == BookingStatus.CANCELLED else "CONFIRMED",
    )

    organizer = vCalAddress(f"MAILTO:{ORGANIZER_EMAIL}")
    organizer.params["cn"] = vText("Appointment Service")
    event["organizer"] = organizer

    event.add("attendee", _attendee(requester), encode=0)
    event.add("attendee", _attendee(provider), encode=0)

    cal.add_component(event)
    return cal.to_ical()
