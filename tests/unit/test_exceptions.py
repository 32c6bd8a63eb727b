import pytest

from hellen_cache.exceptions import (
    BackendConnectionError,
    BackendOperationError,
    CacheError,
    ConfigurationError,
    LockAcquisitionError,
    LockError,
    LockNotOwnedError,
    SerializationError,
)


@pytest.mark.parametrize(
    "exc_class",
    [
        BackendConnectionError,
        BackendOperationError,
        SerializationError,
        ConfigurationError,
        LockError,
        LockAcquisitionError,
        LockNotOwnedError,
    ],
)
def test_everything_is_a_cache_error(exc_class):
    assert issubclass(exc_class, CacheError)


def test_lock_acquisition_error_default_message():
    error = LockAcquisitionError("job:transcribe:1")
    assert error.resource == "job:transcribe:1"
    assert str(error) == "Resource is locked: job:transcribe:1"
    assert isinstance(error, LockError)


def test_lock_not_owned_error_custom_message():
    error = LockNotOwnedError("report", "expired")
    assert error.resource == "report"
    assert str(error) == "expired"


def test_lock_error_resource_optional():
    assert LockError("boom").resource is None
