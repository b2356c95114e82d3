"""Tests for page/limit arithmetic."""
import pytest

from nearserve.lib.pagination import PageRequest


@pytest.mark.unit
def test_offset():
    assert PageRequest(1, 10).offset == 0
    assert PageRequest(3, 20).offset == 40


@pytest.mark.unit
def test_meta_rounds_pages_up():
    assert PageRequest(2, 10).meta(21) == {"total": 21, "page": 2, "pages": 3, "limit": 10}


@pytest.mark.unit
def test_meta_empty():
    assert PageRequest().meta(0)["pages"] == 0
