import random

from html_optimizer.grouping import group
from html_optimizer.models import AssetKind, AssetReference, ClassifiedReference, Position


def _refs(*sizes):
    return [
        ClassifiedReference(
            AssetReference(
                url=f"/css/{index}.css",
                raw_tag=f'<link rel="stylesheet" href="/css/{index}.css">',
                position=Position.HEAD,
                kind=AssetKind.CSS,
            ),
            eligible=True,
            file_size=size,
        )
        for index, size in enumerate(sizes)
    ]


def _sizes(batches):
    return [[ref.file_size for ref in batch.references] for batch in batches]


def test_batch_closes_when_next_reference_would_exceed():
    batches = group(_refs(100_000, 200_000, 50_000), 250_000)
    assert _sizes(batches) == [[100_000], [200_000, 50_000]]
    assert [batch.total_bytes for batch in batches] == [100_000, 250_000]


def test_oversized_reference_forms_its_own_batch():
    assert _sizes(group(_refs(300_000, 10), 250_000)) == [[300_000], [10]]
    assert _sizes(group(_refs(10, 300_000, 10), 250_000)) == [[10], [300_000], [10]]


def test_non_positive_ceiling_disables_the_limit():
    assert _sizes(group(_refs(5, 6, 7), 0)) == [[5, 6, 7]]


def test_empty_input_gives_no_batches():
    assert group([], 100) == []


def test_ceiling_and_order_hold_for_random_inputs():
    rng = random.Random(1234)
    for _ in range(50):
        refs = _refs(*[rng.randint(1, 400) for _ in range(rng.randint(1, 30))])
        ceiling = rng.randint(100, 600)
        batches = group(refs, ceiling)

        flattened = [ref for batch in batches for ref in batch.references]
        assert flattened == refs
        for batch in batches:
            assert batch.total_bytes <= ceiling or len(batch.references) == 1
        assert [src for batch in batches for src in batch.sources] == [ref.url for ref in refs]
