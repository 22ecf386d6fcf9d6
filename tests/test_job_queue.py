import random
import threading
import time
from collections import Counter

import pytest

from art_generator import ImageDescriptor, JobQueue


def _descriptors(count):
    return [ImageDescriptor(id=index) for index in range(1, count + 1)]


def test_claims_every_descriptor_once_then_stays_empty():
    queue = JobQueue(_descriptors(3))

    claimed = [queue.claim_next() for _ in range(3)]

    assert sorted(d.id for d in claimed) == [1, 2, 3]
    assert queue.claim_next() is None
    assert queue.claim_next() is None
    assert len(queue) == 0
    assert queue.claimed == 3


def test_empty_queue_returns_none():
    queue = JobQueue([])
    assert queue.claim_next() is None
    assert queue.claimed == 0


def test_queue_copies_input_list():
    items = _descriptors(2)
    queue = JobQueue(items)
    queue.claim_next()
    assert len(items) == 2


@pytest.mark.parametrize("seed", range(8))
@pytest.mark.parametrize("workers,jobs", [(2, 5), (4, 50), (8, 200), (16, 3)])
def test_concurrent_claims_are_exactly_once(seed, workers, jobs):
    rng = random.Random(seed * 1000 + workers * 10 + jobs)
    delays = [rng.random() * 0.0005 for _ in range(workers)]
    queue = JobQueue(_descriptors(jobs))
    claimed = [[] for _ in range(workers)]
    barrier = threading.Barrier(workers)

    def claimer(index):
        barrier.wait()
        while True:
            descriptor = queue.claim_next()
            if descriptor is None:
                break
            claimed[index].append(descriptor.id)
            time.sleep(delays[index])

    threads = [threading.Thread(target=claimer, args=(index,)) for index in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    counts = Counter(image_id for ids in claimed for image_id in ids)
    assert set(counts) == set(range(1, jobs + 1))
    assert all(count == 1 for count in counts.values())
    assert queue.claimed == jobs
    assert queue.claim_next() is None
