import gzip
import json
import zlib

import structlog

from .models import Observation

log = structlog.get_logger()


class BatchDecodeError(Exception):
    """The request body is not a valid gzip-compressed NDJSON batch."""


def decompress_batch(body):
    try:
        return gzip.decompress(body).decode("utf-8")
    except (OSError, EOFError, zlib.error, UnicodeDecodeError) as e:
        raise BatchDecodeError(f"Could not decompress batch: {e}") from e


def parse_observations(text):
    """
    Parses newline-delimited JSON log lines into observations.

    Blank lines are ignored. Records that are not JSON objects, or that lack a
    non-empty ``DeviceID`` or ``DeviceName``, are dropped.

    Raises:
        BatchDecodeError: If any non-blank line is not valid JSON.
    """
    observations = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError as e:
            raise BatchDecodeError(f"Malformed JSON on line {line_number}: {e.msg}") from e
        if not isinstance(entry, dict):
            continue

        device_id = entry.get("DeviceID")
        device_name = entry.get("DeviceName")
        if device_id and device_name:
            observations.append(Observation(device_id=str(device_id), device_name=str(device_name)))
    return observations


def deduplicate(observations):
    """Maps device id to device name; the last name seen for an id wins."""
    unique_devices = {}
    for observation in observations:
        unique_devices[observation.device_id] = observation.device_name
    return unique_devices


def decode_batch(body):
    observations = parse_observations(decompress_batch(body))
    unique_devices = deduplicate(observations)
    log.debug("Decoded Logpush batch", records=len(observations), unique_devices=len(unique_devices))
    return unique_devices
