import logging

from lingolift.application.log_setup import setup_logging, verbosity_to_level


def test_verbosity_levels():
    assert verbosity_to_level(0) == logging.WARNING
    assert verbosity_to_level(1) == logging.INFO
    assert verbosity_to_level(3) == logging.DEBUG


def test_setup_logging_writes_file_and_is_repeatable(tmp_path):
    log_dir = tmp_path / "logs"
    root = logging.getLogger()
    previous_level = root.level

    setup_logging(log_dir, verbose=0)
    path = setup_logging(log_dir, verbose=2)

    ours = [h for h in root.handlers if getattr(h, "_lingolift", False)]
    assert len(ours) == 2

    logging.getLogger("lingolift.test").debug("hello from the test")
    for handler in ours:
        handler.flush()
    assert "hello from the test" in path.read_text(encoding="utf-8")

    for handler in ours:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(previous_level)
