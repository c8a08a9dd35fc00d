"""
Tabular views of events and buckets for grouping, reporting and notebooks.

Quantities are kept as Python ints and money as Decimals in object columns so
very large supplies survive the trip into pandas (and its groupby sums)
unchanged.
"""

from typing import Iterable, List

import pandas as pd

from .models import AggregateBucket, ItemizedEvent

EVENT_COLUMNS = [
    'event_id', 'kind', 'project_id', 'timestamp', 'quantity', 'co2e_quantity',
    'participant_address', 'participant_name', 'participant_type',
    'beneficiary', 'purpose', 'counterparty', 'payment_method', 'currency',
    'processor', 'usd_value', 'processing_fee', 'status', 'vintage',
    'methodology', 'registry', 'transaction_hash', 'block_number', 'gas_used',
    'gas_price', 'serial_numbers', 'location',
]

BUCKET_COLUMNS = [
    'key', 'label', 'category', 'count', 'amount', 'co2e_amount',
    'usd_value', 'percentage', 'count_percentage',
]


def events_to_frame(events: Iterable[ItemizedEvent]) -> pd.DataFrame:
    """One row per event, flattened"""
    rows = []
    for e in events:
        rows.append({
            'event_id': e.id,
            'kind': e.kind.value,
            'project_id': e.project_id,
            'timestamp': e.timestamp,
            'quantity': e.quantity,
            'co2e_quantity': e.co2e_quantity,
            'participant_address': e.participant.address,
            'participant_name': e.participant.name,
            'participant_type': e.participant.category.value,
            'beneficiary': e.beneficiary.name,
            'purpose': e.beneficiary.purpose,
            'counterparty': e.counterparty,
            'payment_method': e.payment.method.value,
            'currency': e.payment.currency,
            'processor': e.payment.processor,
            'usd_value': e.payment.usd_value,
            'processing_fee': e.payment.processing_fee,
            'status': e.status.value,
            'vintage': e.vintage,
            'methodology': e.methodology,
            'registry': e.registry,
            'transaction_hash': e.transaction_hash,
            'block_number': e.block_number,
            'gas_used': e.gas_used,
            'gas_price': float(e.gas_price),
            'serial_numbers': ';'.join(e.serial_numbers),
            'location': e.location,
        })

    df = pd.DataFrame(rows, columns=EVENT_COLUMNS)
    df['quantity'] = df['quantity'].astype(object)
    df['co2e_quantity'] = df['co2e_quantity'].astype(object)
    df['usd_value'] = df['usd_value'].astype(object)
    df['processing_fee'] = df['processing_fee'].astype(object)
    if not df.empty:
        df['timestamp'] = pd.to_datetime(df['timestamp'], utc=True)
    return df


def buckets_to_frame(buckets: Iterable[AggregateBucket]) -> pd.DataFrame:
    rows: List[dict] = [
        {
            'key': b.key,
            'label': b.label,
            'category': b.category,
            'count': b.count,
            'amount': b.amount,
            'co2e_amount': b.co2e_amount,
            'usd_value': b.usd_value,
            'percentage': b.percentage,
            'count_percentage': b.count_percentage,
        }
        for b in buckets
    ]
    df = pd.DataFrame(rows, columns=BUCKET_COLUMNS)
    df['amount'] = df['amount'].astype(object)
    df['co2e_amount'] = df['co2e_amount'].astype(object)
    df['usd_value'] = df['usd_value'].astype(object)
    return df
