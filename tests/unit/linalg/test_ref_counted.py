import pytest

from wiregraph.linalg import Matrix, RefCounted, set_refcount_checks
from wiregraph.utils.exceptions import ReferenceCountError


class CountingHandle(RefCounted):
    def __init__(self):
        super().__init__()
        self.free_calls = 0

    def _free(self):
        self.free_calls += 1


@pytest.mark.unit
def test_new_handle_starts_with_one_reference():
    m = Matrix.zeros(2, 2)
    assert m.ref_count == 1
    assert m.is_valid


@pytest.mark.unit
def test_add_ref_and_release_balance():
    handle = CountingHandle()
    for _ in range(4):
        handle.add_ref()
    assert handle.ref_count == 5

    for _ in range(4):
        handle.release()
    assert handle.free_calls == 0
    assert handle.is_valid

    assert handle.release() == 0
    assert handle.free_calls == 1
    assert not handle.is_valid


@pytest.mark.unit
def test_freed_matrix_data_is_inaccessible():
    m = Matrix.zeros(2, 3)
    m.release()
    with pytest.raises(ReferenceCountError, match="freed"):
        _ = m.data


@pytest.mark.unit
def test_over_release_raises_when_checks_enabled():
    handle = CountingHandle()
    handle.release()
    with pytest.raises(ReferenceCountError, match="without a matching retain"):
        handle.release()
    assert handle.free_calls == 1


@pytest.mark.unit
def test_retain_after_free_raises_when_checks_enabled():
    handle = CountingHandle()
    handle.release()
    with pytest.raises(ReferenceCountError, match="already been freed"):
        handle.add_ref()


@pytest.mark.unit
def test_over_release_warns_or_is_ignored_by_mode():
    handle = CountingHandle()
    handle.release()

    set_refcount_checks("warn")
    with pytest.warns(UserWarning, match="without a matching retain"):
        assert handle.release() == 0

    set_refcount_checks("ignore")
    assert handle.release() == 0
    assert handle.free_calls == 1


@pytest.mark.unit
def test_dispose_is_idempotent():
    handle = CountingHandle()
    handle.dispose()
    handle.dispose()
    assert handle.free_calls == 1


@pytest.mark.unit
def test_context_manager_drops_the_owning_reference():
    with Matrix.zeros(1, 1) as m:
        assert m.is_valid
    assert not m.is_valid
