# fleetdesk/services/dtc_codes.py
"""
OBD-II diagnostic trouble codes.

Code layout: system letter (P/C/B/U), generic-or-manufacturer digit,
subsystem digit, then two fault digits.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, asdict

SEVERITIES = ("info", "warning", "critical")

SYSTEM_NAMES = {
    "P": "Powertrain",
    "C": "Chassis",
    "B": "Body",
    "U": "Network",
}

POWERTRAIN_SUBSYSTEMS = {
    "0": "Fuel and Air Metering",
    "1": "Fuel and Air Metering",
    "2": "Fuel Injection System",
    "3": "Ignition System",
    "4": "Emission Controls",
    "5": "Speed Control and Idle Control",
    "6": "Computer Output Circuit",
    "7": "Transmission",
    "8": "Transmission",
}

DTC_CODE_RE = re.compile(r"^[PCBU][0-3][0-9A-F]{3}$")


@dataclass(frozen=True)
class DtcDefinition:
    code: str
    description: str
    severity: str
    system: str

    def to_dict(self):
        return asdict(self)


KNOWN_CODES = {d.code: d for d in (
    DtcDefinition("P0115", "Engine Coolant Temperature Circuit", "critical", "Engine Temperature"),
    DtcDefinition("P0171", "System Too Lean (Bank 1)", "critical", "Fuel Trim"),
    DtcDefinition("P0172", "System Too Rich (Bank 1)", "critical", "Fuel Trim"),
    DtcDefinition("P0300", "Random/Multiple Cylinder Misfire Detected", "critical", "Ignition System"),
    DtcDefinition("P0301", "Cylinder 1 Misfire Detected", "critical", "Ignition System"),
    DtcDefinition("P0302", "Cylinder 2 Misfire Detected", "critical", "Ignition System"),
    DtcDefinition("P0303", "Cylinder 3 Misfire Detected", "critical", "Ignition System"),
    DtcDefinition("P0304", "Cylinder 4 Misfire Detected", "critical", "Ignition System"),
    DtcDefinition("P0335", "Crankshaft Position Sensor A Circuit", "critical", "Ignition System"),
    DtcDefinition("P0700", "Transmission Control System Malfunction", "critical", "Transmission"),
    DtcDefinition("P0100", "Mass or Volume Air Flow Circuit Malfunction", "warning", "Fuel and Air Metering"),
    DtcDefinition("P0420", "Catalyst System Efficiency Below Threshold (Bank 1)", "warning", "Emission Controls"),
    DtcDefinition("P0455", "Evaporative Emission Control System Leak Detected (large leak)", "warning",
                  "Emission Controls"),
    DtcDefinition("P0440", "Evaporative Emission Control System Malfunction", "info", "Emission Controls"),
    DtcDefinition("P0442", "Evaporative Emission Control System Leak Detected (small leak)", "info",
                  "Emission Controls"),
    DtcDefinition("C0035", "Left Front Wheel Speed Sensor Circuit", "critical", "ABS"),
    DtcDefinition("C0121", "Valve Relay Circuit", "critical", "ABS"),
    DtcDefinition("B0001", "Driver Frontal Stage 1 Deployment Control", "critical", "Airbag"),
    DtcDefinition("U0100", "Lost Communication With ECM/PCM A", "critical", "CAN Bus"),
    DtcDefinition("U0121", "Lost Communication With ABS", "critical", "CAN Bus"),
)}


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def is_valid_code(code: str) -> bool:
    return bool(DTC_CODE_RE.match(normalize_code(code)))


def get_dtc_severity(code: str) -> str:
    code = normalize_code(code)
    prefix = code[:1]
    subsystem = code[2:3]

    if prefix == "P":
        if code.startswith(("P030", "P031", "P017", "P018", "P07", "P011", "P012", "P052")):
            return "critical"
    if prefix == "C":
        if re.match(r"^C00[345]", code) or code.startswith(("C01", "C02")):
            return "critical"
    if prefix == "P" and subsystem in ("0", "4"):
        return "warning"
    if prefix == "B":
        return "critical" if code.startswith(("B00", "B01")) else "info"
    if prefix == "U":
        return "warning" if code.startswith("U01") else "info"
    return "warning"


def system_name(code: str) -> str:
    return SYSTEM_NAMES.get(normalize_code(code)[:1], "Unknown")


def lookup_dtc_code(code: str) -> DtcDefinition:
    """Known definition, or one generated from the code's structure."""
    code = normalize_code(code)
    if code in KNOWN_CODES:
        return KNOWN_CODES[code]

    system = system_name(code)
    description = f"{system} Fault - Code {code}"
    if code.startswith("P") and code[2:3] in POWERTRAIN_SUBSYSTEMS:
        description = f"{POWERTRAIN_SUBSYSTEMS[code[2:3]]} - {code}"
    return DtcDefinition(code=code, description=description, severity=get_dtc_severity(code), system=system)


def parse_dtc_response(raw: str) -> list[str]:
    """
    Decode a Mode 03/07 ELM327-style response such as ``"43 01 33 00 00"``.

    Each code is two bytes (four hex chars). The top two bits of the first
    nibble pick the system letter, the low two bits the first digit, and the
    remaining three hex chars follow verbatim. ``0000`` is padding.
    """
    cleaned = re.sub(r"\s+", "", raw or "").upper()
    if cleaned.startswith(("43", "47")):
        cleaned = cleaned[2:]
    if not re.fullmatch(r"[0-9A-F]*", cleaned):
        raise ValueError("Response contains non-hex characters")

    codes = []
    for i in range(0, len(cleaned) - 3, 4):
        chunk = cleaned[i:i + 4]
        if chunk == "0000":
            continue
        first = int(chunk[0], 16)
        letter = "PCBU"[first >> 2]
        codes.append(f"{letter}{first & 0x3}{chunk[1:]}")
    return codes
