from campus_safety.models import Landmark

# University of Houston main campus
CAMPUS_CENTER = (29.7199, -95.3422)

INCIDENT_TYPES = [
    "Suspicious Activity",
    "Unauthorized Protesting",
    "Blue Light Trigger",
    "Medical Assistance",
    "Facility Breach",
    "Theft Reported",
    "Verbal Altercation",
]

CAMPUS_LOCATIONS = [
    Landmark(name="TDECU Stadium", coords=(29.7218, -95.3491)),
    Landmark(name="Student Center South", coords=(29.7176, -95.3444)),
    Landmark(name="MD Anderson Library", coords=(29.7199, -95.3448)),
    Landmark(name="Cullen Performance Hall", coords=(29.7220, -95.3435)),
    Landmark(name="Fertitta Center", coords=(29.7232, -95.3475)),
    Landmark(name="College of Architecture", coords=(29.7208, -95.3405)),
]

SOS_INCIDENT_TYPE = "SOS TRANSMISSION"
SOS_MAX_LENGTH = 160
AGENT_ALERT_THRESHOLD = 60
