import itertools
import threading

import pytest

from reptonatlas.core import Region, SpriteCrop
from reptonatlas.core.colours import BLUE, GREEN, NO_COLOUR, RED
from reptonatlas.core.dataset import DatasetRegistry, DeduplicationStore
from reptonatlas.core.debug_locks import CriticalSectionTracker
from reptonatlas.core.errors import InvariantViolation
from reptonatlas.core.sprite_compare import images_are_equal

from synthetic import GREY, THEME_RGB, make_tile, screenshot


def _crop(tile, label="t.png"):
    return SpriteCrop(tile, Region.of(tile), label)


def _grey(i):
    return _crop(make_tile(GREY, i))


def _themed(colour, i):
    return _crop(make_tile(THEME_RGB[colour], i))


def _has_duplicates(store):
    sprites = store.sprites
    return any(
        images_are_equal(a.pixels, None, b.pixels, None) for a, b in itertools.combinations(sprites, 2)
    )


def _contains(store, tile):
    return any(images_are_equal(s.pixels, None, tile, None) for s in store.sprites)


def test_new_sprite_is_added_once():
    store = DeduplicationStore("1.png", DatasetRegistry())
    assert store.try_add(_grey(0)) is True
    assert store.try_add(_grey(0)) is False
    assert len(store) == 1


def test_crops_from_shared_screenshot():
    sheet = screenshot([make_tile(GREY, 1), make_tile(GREY, 2), make_tile(GREY, 1)], columns=3)
    store = DeduplicationStore("1.png", DatasetRegistry())
    results = [store.try_add(SpriteCrop(sheet, Region(x, 0, x + 64, 64), "1.png")) for x in (0, 64, 128)]
    assert results == [True, True, False]
    assert [s.label for s in store.sprites] == ["1.png_", "1.png_"]


def test_in_flight_duplicate_is_rejected_without_waiting():
    store = DeduplicationStore("1.png", DatasetRegistry())
    store._pending.append(_grey(4))
    assert store.try_add(_grey(4)) is False
    assert len(store) == 0


def test_completion_caps_sequence_length():
    store = DeduplicationStore("1.png", DatasetRegistry(), target=3)
    added = [store.try_add(_grey(i)) for i in range(5)]
    assert added == [True, True, True, False, False]
    assert store.has_all_distinct is True
    assert len(store) == 3


def test_grey_sprites_leave_colour_unknown():
    registry = DatasetRegistry()
    store = DeduplicationStore("1.png", registry)
    store.try_add(_crop(make_tile((0, 0, 0), 0, (0, 0, 0))))
    store.try_add(_grey(0))
    assert store.dominant_colour == NO_COLOUR
    assert len(registry) == 0


def test_first_store_of_a_colour_becomes_canonical():
    registry = DatasetRegistry()
    store = DeduplicationStore("1.png", registry)
    store.try_add(_grey(0))
    store.try_add(_themed(RED, 0))
    assert store.dominant_colour == RED
    assert registry.get(RED) is store
    assert store.forward_to is None
    assert store.resolve() is store


def test_green_needs_three_detections():
    registry = DatasetRegistry()
    store = DeduplicationStore("1.png", registry)
    store.try_add(_themed(GREEN, 0))
    store.try_add(_themed(GREEN, 1))
    assert store.dominant_colour == NO_COLOUR
    assert store.dominant_greens == 2
    store.try_add(_themed(GREEN, 2))
    assert store.dominant_colour == GREEN
    assert registry.get(GREEN) is store


def test_second_store_of_a_colour_forwards_and_merges():
    registry = DatasetRegistry()
    first = DeduplicationStore("1.png", registry)
    second = DeduplicationStore("2.png", registry)
    first.try_add(_grey(0))
    first.try_add(_themed(BLUE, 0))

    earlier = [make_tile(GREY, 0), make_tile(GREY, 7), make_tile(THEME_RGB[BLUE], 1)]
    for tile in earlier:
        second.try_add(_crop(tile, "2.png"))

    assert second.forward_to is first
    assert second.resolve() is first
    assert second.sprites == ()
    for tile in earlier:
        assert _contains(first, tile)
    assert len(first) == 4
    assert not _has_duplicates(first)

    assert second.try_add(_grey(9)) is True
    assert second.sprites == ()
    assert _contains(first, make_tile(GREY, 9))


def test_forwarded_store_mirrors_target_completion():
    registry = DatasetRegistry()
    first = DeduplicationStore("1.png", registry, target=4)
    second = DeduplicationStore("2.png", registry, target=4)
    first.try_add(_themed(BLUE, 0))
    first.try_add(_grey(0))
    first.try_add(_grey(1))
    assert not first.has_all_distinct

    second.try_add(_grey(2))
    second.try_add(_themed(BLUE, 5))
    assert first.has_all_distinct
    assert second.has_all_distinct
    assert len(first) == 4


def test_concurrent_submissions_never_duplicate():
    store = DeduplicationStore("1.png", DatasetRegistry(), target=1000)
    tiles = [make_tile(GREY, i) for i in range(20)]
    barrier = threading.Barrier(8)

    def submit(offset):
        barrier.wait()
        for i in range(len(tiles)):
            tile = tiles[(i + offset) % len(tiles)]
            # Fresh copies so in-flight tracking cannot rely on identity.
            store.try_add(_crop(tile.copy()))

    threads = [threading.Thread(target=submit, args=(n * 3,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(store) == len(tiles)
    assert not _has_duplicates(store)


def test_concurrent_forwarding_from_many_stores():
    registry = DatasetRegistry()
    stores = [DeduplicationStore(f"{n}.png", registry, target=1000) for n in range(6)]

    def feed(n, store):
        for i in range(6):
            store.try_add(_grey(n * 6 + i))
            store.try_add(_grey(i))
        store.try_add(_themed(BLUE, n))
        for i in range(6):
            store.try_add(_grey(100 + i))

    threads = [threading.Thread(target=feed, args=(n, s)) for n, s in enumerate(stores)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    canonical = registry.get(BLUE)
    assert canonical in stores
    for store in stores:
        assert store.resolve() is canonical
        if store is not canonical:
            assert store.sprites == ()
    assert not _has_duplicates(canonical)
    # Greys 0-35 (the shared greys 0-5 among them), six blues, six late greys.
    assert len(canonical) == 36 + 6 + 6


def test_tracker_sees_balanced_sections():
    tracker = CriticalSectionTracker()
    registry = DatasetRegistry()
    first = DeduplicationStore("1.png", registry, tracker=tracker)
    second = DeduplicationStore("2.png", registry, tracker=tracker)
    first.try_add(_themed(RED, 0))
    second.try_add(_grey(0))
    second.try_add(_themed(RED, 1))
    assert tracker.entries > 0
    assert tracker.active() == frozenset()


def test_reentering_a_store_section_raises_instead_of_blocking():
    tracker = CriticalSectionTracker()
    store = DeduplicationStore("1.png", DatasetRegistry(), tracker=tracker)
    errors = []

    def nest():
        try:
            with store._holding(store._lock, "sprites"):
                with store._holding(store._lock, "sprites"):
                    pass
        except InvariantViolation as exc:
            errors.append(exc)

    worker = threading.Thread(target=nest)
    worker.start()
    worker.join(timeout=5)
    assert not worker.is_alive()
    assert len(errors) == 1
    assert "1.png.sprites" in str(errors[0])
    # The outer section unwound cleanly.
    assert tracker.active() == frozenset()
    assert len(store) == 0


def test_registry_claim_is_first_come():

    registry = DatasetRegistry()
    a = DeduplicationStore("a", registry)
    b = DeduplicationStore("b", registry)
    assert registry.claim(BLUE, a) is a
    assert registry.claim(BLUE, b) is a
    assert BLUE in registry
    assert registry.complete_colours() == []


@pytest.mark.parametrize("colour", sorted(THEME_RGB))
def test_each_theme_colour_is_detected(colour):
    registry = DatasetRegistry()
    store = DeduplicationStore("1.png", registry)
    for i in range(3):
        store.try_add(_themed(colour, i))
    assert store.dominant_colour == colour


def test_sample_point_logs_comparison(caplog):
    store = DeduplicationStore("1.png", DatasetRegistry())
    store.try_add(_grey(0))
    tile = make_tile(GREY, 1)
    with caplog.at_level("DEBUG", logger="reptonatlas.core.sprite_compare"):
        assert store.try_add(SpriteCrop(tile, Region.of(tile), "s.png", sample_point=True)) is True
    assert "Comparing regions" in caplog.text
    assert store.sprites[-1].sample_point is True
