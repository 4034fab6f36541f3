import logging

from avafleet.logging.log import init_logging


def test_init_logging_writes_run_file(tmp_path):
    logger, run_id, path = init_logging(
        base_dir=tmp_path, command="apply", cluster_id="c1", console=False
    )
    logger.debug("stack c1-vpc: CREATE_IN_PROGRESS")
    for h in logger.handlers:
        h.flush()

    assert path.parent == tmp_path
    assert path.name.startswith("apply-")
    assert run_id[:8] in path.name
    text = path.read_text()
    assert "cluster_id=c1" in text
    assert "CREATE_IN_PROGRESS" in text
    assert logging.getLogger("botocore").level == logging.WARNING


def test_init_logging_replaces_handlers(tmp_path):
    init_logging(base_dir=tmp_path, console=True)
    logger, _, _ = init_logging(base_dir=tmp_path, console=False)
    assert len(logger.handlers) == 1
