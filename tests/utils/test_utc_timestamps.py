import re
import warnings
from datetime import datetime, timezone

from avafleet.config.loader import generate_id
from avafleet.logging.log import init_logging
from avafleet.observers.events import new_ctx


def test_timestamps_are_utc_without_deprecation_warnings(tmp_path):
    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        ts = new_ctx("c1", None, "run-1")["ts"]
        cluster_id = generate_id()
        _, _, path = init_logging(base_dir=tmp_path, command="apply", console=False)

    parsed = datetime.strptime(ts, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
    assert abs((datetime.now(timezone.utc) - parsed).total_seconds()) < 60
    assert re.fullmatch(r"avafleet-\d{8}-[a-z0-9]{6}", cluster_id)
    assert re.fullmatch(r"apply-\d{8}-\d{6}-[0-9a-f]{8}\.log", path.name)
