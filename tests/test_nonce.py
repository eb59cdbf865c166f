from concurrent.futures import ThreadPoolExecutor

import pytest

from bootstrapper.nonce import NonceSequencer


def test_sequential_nonces():
    nonces = NonceSequencer(7)
    assert nonces.peek() == 7
    assert [nonces.next() for _ in range(3)] == [7, 8, 9]
    assert nonces.peek() == 10


def test_nonces_are_unique_across_threads():
    nonces = NonceSequencer(100)
    with ThreadPoolExecutor(max_workers=8) as executor:
        issued = list(executor.map(lambda _: nonces.next(), range(800)))
    assert sorted(issued) == list(range(100, 900))


def test_negative_start():
    with pytest.raises(ValueError):
        NonceSequencer(-1)
