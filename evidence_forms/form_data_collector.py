"""
Form data collection for PDF/JSON generation and submission.

Produces the flat address -> value map the ticketing system keys on, plus
the derived summary fields it expects for a recovery request.
"""

import logging
from typing import Dict, Any, List

import pandas as pd

from .field_addressing import FieldKey
from .validators import calculate_duration, format_phone, is_blank

logger = logging.getLogger(__name__)

REQUEST_AREA = "recovery"
DEFAULT_OCCURRENCE_TYPE = "Recovery Request"
PHONE_FIELDS = ('locationContactPhone',)

TIME_FRAME_COLUMNS = ['DVR', 'Time Frame', 'From', 'To', 'Duration', 'Type', 'Cameras']


def _camera_count(camera_details: str) -> int:
    return len([line for line in (camera_details or '').split('\n') if line.strip()])


def collect_form_data(session) -> Dict[str, Any]:
    """
    Collect every field value plus the derived third-party fields.

    Widget-backed fields are read through the picker adapter.

    Args:
        session: FormSession (anything exposing ``form`` and ``store``)

    Returns:
        Flat dictionary keyed by wire address, in document order
    """
    form = session.form
    data: Dict[str, Any] = session.store.values()

    for address in list(data):
        if form.decode(address).base_name in PHONE_FIELDS and data[address]:
            data[address] = format_phone(data[address])

    data['reqArea'] = REQUEST_AREA
    if is_blank(data.get('occType')):
        data['occType'] = DEFAULT_OCCURRENCE_TYPE

    first_start = data.get('timePeriodFrom', '')
    if first_start:
        data['occDate'] = first_start.split('T')[0]

    if data.get('city') == 'Other' and data.get('cityOther'):
        data['cityDisplay'] = data['cityOther']
    else:
        data['cityDisplay'] = data.get('city', '')

    data['fileDetails'] = generate_file_details(session, data)
    data['rfsDetails'] = data.get('incidentDescription', '')

    logger.info(f"Collected {len(data)} values for '{form.definition.form_type}' "
                f"({len(form.groups)} DVR system(s))")
    return data


def generate_file_details(session, data: Dict[str, Any]) -> str:
    """One-line summary of location, DVRs, time frames and cameras."""
    form = session.form
    store = session.store
    details: List[str] = []

    if data.get('businessName'):
        details.append(f"Business: {data['businessName']}")
    details.append(f"Location: {data.get('locationAddress', '')}, {data.get('cityDisplay', '')}")

    item_count = sum(len(group.items) for group in form.groups)
    details.append(f"{len(form.groups)} DVR system(s), {item_count} time frame(s)")

    try:
        duration = calculate_duration(store.read(FieldKey('timePeriodFrom', 0, 0)),
                                      store.read(FieldKey('timePeriodTo', 0, 0)))
    except ValueError:
        duration = None
    if duration is not None and duration.total_minutes > 0:
        details.append(f"Extraction period: {duration.total_minutes} minutes")

    time_type = store.read(FieldKey('timePeriodType', 0, 0))
    if time_type:
        details.append(f"Time type: {time_type}")

    cameras = sum(
        _camera_count(store.read(FieldKey('cameraDetails', g, i)))
        for g, group in enumerate(form.groups)
        for i in range(len(group.items))
    )
    if cameras:
        details.append(f"{cameras} camera(s) listed")

    return ' | '.join(details)


def summarize_time_frames(session) -> pd.DataFrame:
    """
    Table of every extraction time frame for the review panel.

    Returns:
        DataFrame with one row per DVR / time frame
    """
    form = session.form
    store = session.store
    rows = []

    for g, group in enumerate(form.groups):
        for i in range(len(group.items)):
            start = store.read(FieldKey('timePeriodFrom', g, i))
            end = store.read(FieldKey('timePeriodTo', g, i))
            try:
                duration = calculate_duration(start, end).formatted
            except ValueError:
                duration = ''
            rows.append({
                'DVR': g + 1,
                'Time Frame': i + 1,
                'From': start,
                'To': end,
                'Duration': duration,
                'Type': store.read(FieldKey('timePeriodType', g, i)),
                'Cameras': _camera_count(store.read(FieldKey('cameraDetails', g, i))),
            })

    return pd.DataFrame(rows, columns=TIME_FRAME_COLUMNS)
