"""
Structured-output contracts for the three completion calls.

Each contract is a dict of the form {name, strict, schema}. The schema is a
JSON Schema (Draft 7 subset) that:

- forbids properties outside the declared set on every object,
- lists every property as required; optional leaves are modeled as
  ["type", "null"] unions so no stage can silently drop a field,
- bounds every string leaf and constrains dates to YYYY-MM-DD,
- uses the closed enumerations from domain.enums.

The same schema is sent to the completion service (constrained decoding)
and re-checked client-side before a payload is accepted.
"""

from typing import Any, Dict, Optional

from .enums import (
    Currency,
    DealStage,
    DeliverableType,
    EvidenceSource,
    LastActionNeededBy,
    PaymentStatus,
    Platform,
    enum_values,
)

ISO_DATE_PATTERN = r'^\d{4}-\d{2}-\d{2}$'

MAX_EVIDENCE_QUOTE_CHARS = 240
MAX_KEY_DATES = 30
MAX_REQUIRED_ACTIONS = 50
MAX_MUST_AVOIDS = 50
MAX_DELIVERABLES = 50


def _string(min_length: Optional[int] = None, max_length: Optional[int] = None,
            nullable: bool = False) -> Dict[str, Any]:
    schema: Dict[str, Any] = {'type': ['string', 'null'] if nullable else 'string'}
    if min_length is not None:
        schema['minLength'] = min_length
    if max_length is not None:
        schema['maxLength'] = max_length
    return schema


def _enum(values, nullable: bool = False) -> Dict[str, Any]:
    values = list(values)
    if nullable:
        return {'type': ['string', 'null'], 'enum': values + [None]}
    return {'type': 'string', 'enum': values}


def _iso_date_or_null() -> Dict[str, Any]:
    return {'type': ['string', 'null'], 'pattern': ISO_DATE_PATTERN}


def _strict_object(properties: Dict[str, Any], nullable: bool = False) -> Dict[str, Any]:
    """Closed object: no extra properties, every declared property required."""
    return {
        'type': ['object', 'null'] if nullable else 'object',
        'additionalProperties': False,
        'properties': properties,
        'required': list(properties.keys()),
    }


def _array(items: Dict[str, Any], max_items: int) -> Dict[str, Any]:
    return {'type': 'array', 'maxItems': max_items, 'items': items}


def _contract(name: str, schema: Dict[str, Any]) -> Dict[str, Any]:
    return {'name': name, 'strict': True, 'schema': schema}


EVIDENCE_SCHEMA: Dict[str, Any] = _strict_object({
    'quote': _string(1, MAX_EVIDENCE_QUOTE_CHARS),
    'source': _enum(enum_values(EvidenceSource)),
    'page': {'type': ['integer', 'null'], 'minimum': 1},
})


def _evidenced(value_schema: Dict[str, Any]) -> Dict[str, Any]:
    """Nullable {value, evidence} wrapper."""
    return _strict_object({'value': value_schema, 'evidence': EVIDENCE_SCHEMA}, nullable=True)


def _named_item(name_max: int = 80, description_max: int = 160) -> Dict[str, Any]:
    return _strict_object({
        'name': _string(1, name_max),
        'description': _string(max_length=description_max, nullable=True),
        'evidence': EVIDENCE_SCHEMA,
    })


ROUTING_SCHEMA: Dict[str, Any] = _contract('routing_v1', _strict_object({
    'isDeal': {'type': 'boolean'},
    'dealStage': _enum(enum_values(DealStage)),
    'shouldParseAttachments': {'type': 'boolean'},
    'routingReason': _string(max_length=200, nullable=True),
}))


MINIMAL_SCHEMA: Dict[str, Any] = _contract('deal_minimal_extraction_v1', _strict_object({
    'campaignName': _evidenced(_string(1, 120)),
    'brandName': _evidenced(_string(1, 120)),
    'lastActionNeededBy': _evidenced(_enum(enum_values(LastActionNeededBy))),
    'draftRequired': _evidenced({'type': 'boolean'}),
    'goLiveWindow': _strict_object({
        'rawText': _string(1, 120),
        'startDate': _iso_date_or_null(),
        'endDate': _iso_date_or_null(),
        'evidence': EVIDENCE_SCHEMA,
    }, nullable=True),
    'payment': _strict_object({
        'amount': {'type': ['number', 'null'], 'minimum': 0},
        'currency': _enum(enum_values(Currency)),
        'paymentTerms': _string(max_length=60, nullable=True),
        'evidence': EVIDENCE_SCHEMA,
    }, nullable=True),
    'deliverablesSummary': _evidenced(_string(1, 220)),
}))


DEEP_SCHEMA: Dict[str, Any] = _contract('deal_deep_extraction_v1', _strict_object({
    'exclusivityRightsSummary': _evidenced(_string(1, 180)),
    'usageRightsSummary': _evidenced(_string(1, 180)),
    'payment': _strict_object({
        'amount': {'type': ['number', 'null'], 'minimum': 0},
        'currency': _enum(enum_values(Currency)),
        'paymentTerms': _string(max_length=120, nullable=True),
        'paymentStatus': _enum(enum_values(PaymentStatus), nullable=True),
        'invoiceSentAt': _iso_date_or_null(),
        'invoiceExpectedAt': _iso_date_or_null(),
        'evidence': EVIDENCE_SCHEMA,
    }),
    'keyDates': _array(_strict_object({
        'name': _string(max_length=80, nullable=True),
        'dateRawText': _string(1, 120),
        'startDate': _iso_date_or_null(),
        'endDate': _iso_date_or_null(),
        'description': _string(max_length=160, nullable=True),
        'evidence': EVIDENCE_SCHEMA,
    }), MAX_KEY_DATES),
    'requiredActions': _array(_named_item(), MAX_REQUIRED_ACTIONS),
    'mustAvoids': _array(_named_item(), MAX_MUST_AVOIDS),
    'deliverables': _array(_strict_object({
        'platform': _enum(enum_values(Platform)),
        'type': _enum(enum_values(DeliverableType)),
        'quantity': {'type': ['integer', 'null'], 'minimum': 1},
        'dueDate': _iso_date_or_null(),
        'dueDateRawText': _string(max_length=120, nullable=True),
        'description': _string(max_length=160, nullable=True),
        'evidence': EVIDENCE_SCHEMA,
    }), MAX_DELIVERABLES),
}))


def all_schemas() -> Dict[str, Dict[str, Any]]:
    """Return the three contracts keyed by contract name."""
    return {
        contract['name']: contract
        for contract in (ROUTING_SCHEMA, MINIMAL_SCHEMA, DEEP_SCHEMA)
    }
