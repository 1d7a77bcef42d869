import numpy as np
import pytest

from drvo.numerical_checks import normalize_checked, require_finite


def test_require_finite():
    assert require_finite("v", np.array([1.0, 2.0]))
    assert not require_finite("v", np.array([1.0, np.nan]), t=0.5, context={"dt": 0.01})
    assert not require_finite("v", None)
    assert not require_finite("big", np.full(40, np.inf), context={"state": np.ones(40)})
    with pytest.raises(ValueError):
        require_finite("v", [np.inf], raise_on_fail=True)


def test_normalize_checked():
    q, ok = normalize_checked(np.array([2.0, 0.0, 0.0, 0.0]))
    assert ok and np.allclose(q, [1.0, 0.0, 0.0, 0.0])
    _, ok = normalize_checked(np.zeros(4))
    assert not ok
    _, ok = normalize_checked(np.array([np.nan, 0.0, 0.0, 1.0]))
    assert not ok
