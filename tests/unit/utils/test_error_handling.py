import pytest

from wiregraph.utils import ErrorMode, ReferenceCountError
from wiregraph.utils.error_handling import handle_benign_error


@pytest.mark.unit
def test_raise_mode_raises_given_class():
    with pytest.raises(ReferenceCountError, match="boom"):
        handle_benign_error(ReferenceCountError, "boom", ErrorMode.RAISE)


@pytest.mark.unit
def test_warn_mode_emits_user_warning():
    with pytest.warns(UserWarning, match="careful"):
        assert handle_benign_error(ReferenceCountError, "careful", "warn") is False


@pytest.mark.unit
def test_ignore_mode_is_silent():
    assert handle_benign_error(ReferenceCountError, "quiet", "ignore") is False


@pytest.mark.unit
def test_invalid_mode_rejected():
    with pytest.raises(ValueError):
        handle_benign_error(ReferenceCountError, "x", "explode")
