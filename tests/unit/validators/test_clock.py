from __future__ import annotations

from datetime import datetime, timedelta, timezone

from venue_crm.utils.clock import utc_now


def test_utc_now_is_naive_and_current():
    value = utc_now()
    reference = datetime.now(timezone.utc).replace(tzinfo=None)
    assert value.tzinfo is None
    assert abs(reference - value) < timedelta(seconds=5)
