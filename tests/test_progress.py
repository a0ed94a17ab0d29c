from io import StringIO

from hashsplit.progress import LogProgress, NullProgress, ProgressBar
from loguru import logger


def test_render():
    bar = ProgressBar(width=50)
    assert bar.render(0) == "[>" + " " * 49 + "]   0%"
    assert bar.render(50) == "[" + "=" * 25 + ">" + " " * 24 + "]   50%"
    assert bar.render(100) == "[" + "=" * 50 + "]   100%"
    # Out of range values are clamped
    assert bar.render(140) == bar.render(100)
    assert bar.render(-3) == bar.render(0)


def test_redraws_on_change_only():
    out = StringIO()
    bar = ProgressBar(stream=out, width=10)
    bar.start("hashing")
    for percent in (0, 0, 10, 10, 10, 20):
        bar.update("hashing", percent)
    bar.finish("hashing")

    text = out.getvalue()
    assert text.count("\r") == 4
    assert text.endswith("\r[==========]   100%\n")


def test_null_progress():
    p = NullProgress()
    p.start("hashing")
    p.update("hashing", 50)
    p.finish("hashing")


def test_log_progress():
    messages = []
    handler = logger.add(messages.append, level="DEBUG", format="{message}")
    logger.enable("hashsplit")
    try:
        p = LogProgress(step=25)
        p.start("shard 1 of 2")
        for percent in range(100):
            p.update("shard 1 of 2", percent)
        p.finish("shard 1 of 2")
    finally:
        logger.disable("hashsplit")
        logger.remove(handler)

    lines = [m.strip() for m in messages]
    assert lines == [
        "shard 1 of 2: started",
        "shard 1 of 2: 0%",
        "shard 1 of 2: 25%",
        "shard 1 of 2: 50%",
        "shard 1 of 2: 75%",
        "shard 1 of 2: done",
    ]
