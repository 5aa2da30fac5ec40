import json
import logging

from shared.core import SecurityFilter, set_request_context
from shared.core.logging_config import StructuredFormatter, order_id_var


def _record(msg, *args, **attrs):
    record = logging.LogRecord("orders", logging.INFO, __file__, 10, msg, args, None)
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


def test_security_filter_masks_url_password():
    record = _record("connecting to %s", "postgresql://orders:hunter2@db:5432/orders")
    SecurityFilter().filter(record)
    message = record.getMessage()
    assert "hunter2" not in message
    assert "postgresql://orders:***@db:5432/orders" in message


def test_security_filter_masks_secret_pairs():
    assert "s3cr3t" not in SecurityFilter.redact("password=s3cr3t retrying")
    assert SecurityFilter.redact("order ord-1 saved") == "order ord-1 saved"


def test_formatter_emits_json_with_order_context():
    token = order_id_var.set(None)
    try:
        set_request_context(order_id="ord-7")
        line = StructuredFormatter().format(
            _record("Order ord-7 saved", extra_fields={"items": 2})
        )
    finally:
        order_id_var.reset(token)

    payload = json.loads(line)
    assert payload["message"] == "Order ord-7 saved"
    assert payload["level"] == "INFO"
    assert payload["trace"]["order_id"] == "ord-7"
    assert payload["custom"] == {"items": 2}
