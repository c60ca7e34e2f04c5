"""
JSON and CSV exports of a collected request.
"""

import json
import logging
from datetime import datetime
from typing import Dict, Any, Optional

from .field_addressing import FieldKey, encode_key
from .form_data_collector import summarize_time_frames
from .validators import calculate_duration, calculate_retention_days, parse_time_offset

logger = logging.getLogger(__name__)

JSON_VERSION = '1.0'
GENERATOR_NAME = 'FVU Request System'


def clean_form_data(form_data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop internal keys and turn empty strings into None."""
    cleaned = {}
    for key, value in form_data.items():
        if key.startswith('_') or key == 'formType':
            continue
        cleaned[key] = None if value == '' else value
    return cleaned


def generate_calculations(session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Derived values per DVR and time frame: retention, durations and clock offset.

    Args:
        session: FormSession (anything exposing ``form`` and ``store``)
        now: Reference time for retention

    Returns:
        Dictionary keyed by the DVR's dvrRetention address
    """
    form = session.form
    store = session.store
    today = (now or datetime.now()).date()
    dvrs = []

    for g, group in enumerate(form.groups):
        dvr: Dict[str, Any] = {'dvr': g + 1}

        earliest = store.read(FieldKey('dvrRetention', g))
        if earliest:
            try:
                retention = calculate_retention_days(earliest, today=today)
                dvr['retentionDays'] = retention.days
                dvr['retentionStatus'] = retention.message
                dvr['isUrgent'] = retention.is_urgent
            except ValueError:
                logger.warning(f"Skipping retention for unparseable date at {encode_key(FieldKey('dvrRetention', g))}")

        if store.read(FieldKey('isTimeDateCorrect', g)) == 'No':
            offset_text = store.read(FieldKey('timeOffset', g))
            if offset_text:
                offset = parse_time_offset(offset_text)
                dvr['timeOffset'] = {
                    'hours': offset.hours,
                    'minutes': offset.minutes,
                    'seconds': offset.seconds,
                    'direction': offset.direction,
                    'formatted': offset.formatted
                }

        frames = []
        for i in range(len(group.items)):
            start = store.read(FieldKey('timePeriodFrom', g, i))
            end = store.read(FieldKey('timePeriodTo', g, i))
            try:
                duration = calculate_duration(start, end)
            except ValueError:
                continue
            if duration.formatted:
                frames.append({
                    'timeFrame': i + 1,
                    'totalMinutes': duration.total_minutes,
                    'formatted': duration.formatted
                })
        if frames:
            dvr['videoDurations'] = frames

        dvrs.append(dvr)

    return {'dvrCount': len(form.groups), 'dvrs': dvrs}


def generate_json_document(form_data: Dict[str, Any], form_type: str, session,
                           now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Build the JSON attachment sent with a request.

    Args:
        form_data: Collected address -> value map
        form_type: Form identifier
        session: FormSession the data came from
        now: Generation time

    Returns:
        Dictionary with metadata, formData and calculations
    """
    now = now or datetime.now()
    document = {
        'metadata': {
            'formType': form_type,
            'version': JSON_VERSION,
            'generated': now.isoformat(),
            'generator': GENERATOR_NAME
        },
        'formData': clean_form_data(form_data),
        'calculations': generate_calculations(session, now)
    }
    logger.debug(f"Generated JSON document with {len(document['formData'])} fields")
    return document


def json_document_bytes(document: Dict[str, Any]) -> bytes:
    return json.dumps(document, indent=2, ensure_ascii=False, default=str).encode('utf-8')


def export_time_frames_csv(session) -> Optional[str]:
    """CSV of the time-frame table, or None when there is nothing to export."""
    df = summarize_time_frames(session)
    if df.empty:
        logger.warning("No time frames to export")
        return None
    return df.to_csv(index=False)
