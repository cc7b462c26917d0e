import pytest

from app.utils import background_worker


def test_enqueue_and_wait_returns_result():
    task_id = background_worker.enqueue(lambda a, b: a + b, 2, 3)
    assert background_worker.wait(task_id, timeout=5) == 5


def test_retries_then_succeeds():
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 2:
            raise RuntimeError("temporary")
        return "ok"

    task_id = background_worker.enqueue(flaky, retries=2, backoff=0)
    assert background_worker.wait(task_id, timeout=5) == "ok"
    assert len(attempts) == 2


def test_exhausted_job_lands_in_dead_letter_queue():
    def always_fails(booking_id):
        raise OSError("smtp unreachable")

    task_id = background_worker.enqueue(always_fails, 42, retries=1, backoff=0)
    with pytest.raises(OSError):
        background_worker.wait(task_id, timeout=5)

    name, args, _kwargs, exc = background_worker.dead_letter_queue[-1]
    assert name == "always_fails"
    assert args == (42,)
    assert isinstance(exc, OSError)


def test_wait_on_unknown_task_raises_key_error():
    with pytest.raises(KeyError):
        background_worker.wait("missing")
