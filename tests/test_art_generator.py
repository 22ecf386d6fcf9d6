import threading
from io import BytesIO

import pytest
from PIL import Image

from art_generator import (
    ArtGenerator,
    ArtWorker,
    FileSink,
    ImageDescriptor,
    JobQueue,
    MapSink,
    build_descriptors,
    create_generative_art,
    create_generative_art_objects,
    detect_parallelism,
    generate_art_objects,
)
from generation_errors import ConfigError, OutputWriteError
from helpers import BLUE, GREEN, RED, assert_close, circle, make_sets, solid
from layer_compositor import LayerCompositor, TraitDirectoryResolver


def _decode(data):
    image = Image.open(BytesIO(data))
    image.load()
    return image.convert("RGBA")


class RecordingSink(MapSink):
    """MapSink that also remembers which thread delivered each artifact."""

    def __init__(self):
        super().__init__()
        self.threads = {}

    def deliver(self, output_name, data):
        self.threads[output_name] = threading.current_thread().name
        return super().deliver(output_name, data)


# ----------------------------------------------------------------------
# Descriptors
# ----------------------------------------------------------------------
def test_descriptor_from_record_parses_id_and_output_name():
    descriptor = ImageDescriptor.from_record({"id": "12", "bg": "red.png"})

    assert descriptor.id == 12
    assert descriptor.traits == {"bg": "red.png"}
    assert descriptor.output_index == 11
    assert descriptor.output_name == "11.png"


@pytest.mark.parametrize("record", [{"bg": "red.png"}, {"id": "abc"}, {"id": None}, "not a mapping"])
def test_descriptor_with_invalid_id(record):
    with pytest.raises(ConfigError):
        ImageDescriptor.from_record(record)


def test_duplicate_ids_are_rejected():
    with pytest.raises(ConfigError):
        build_descriptors([{"id": 1}, {"id": "1"}])


# ----------------------------------------------------------------------
# Sinks
# ----------------------------------------------------------------------
def test_file_sink_writes_atomically(tmp_path):
    sink = FileSink(tmp_path / "assets")

    destination = sink.deliver("0.png", b"payload")

    assert destination == str(tmp_path / "assets")
    assert (tmp_path / "assets" / "0.png").read_bytes() == b"payload"
    assert [p.name for p in (tmp_path / "assets").iterdir()] == ["0.png"]


def test_file_sink_wraps_os_errors(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory")

    with pytest.raises(OutputWriteError) as excinfo:
        FileSink(blocker).deliver("0.png", b"payload")
    assert isinstance(excinfo.value, OSError)


def test_map_sink_handles_concurrent_writers():
    sink = MapSink()

    def writer(offset):
        for index in range(100):
            sink.deliver(f"{offset + index}.png", b"x")

    threads = [threading.Thread(target=writer, args=(n * 100,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(sink.results()) == 800


# ----------------------------------------------------------------------
# Worker
# ----------------------------------------------------------------------
def test_worker_drains_queue_and_keeps_going_after_failures(traits_dir, config):
    descriptors = [
        ImageDescriptor(id=1, traits={"bg": "red.png", "fg": "circle.png"}),
        ImageDescriptor(id=2, traits={"bg": "red.png", "fg": "missing.png"}),
        ImageDescriptor(id=3, traits={"bg": "blue.png", "fg": "circle.png"}),
    ]
    queue = JobQueue(descriptors)
    sink = MapSink()
    worker = ArtWorker(0, queue, LayerCompositor(config), TraitDirectoryResolver(traits_dir), sink)

    stats = worker.run()

    assert sorted(stats.completed) == ["0.png", "2.png"]
    assert [(f.image_id, f.error_type) for f in stats.failures] == [(2, "LoadError")]
    assert queue.claim_next() is None
    assert sorted(sink.results()) == ["0.png", "2.png"]


# ----------------------------------------------------------------------
# Pool scheduler
# ----------------------------------------------------------------------
def test_worker_count_is_bounded_by_jobs_and_parallelism(config):
    generator = ArtGenerator(config, max_workers=4)

    assert generator.worker_count_for(0) == 0
    assert generator.worker_count_for(2) == 2
    assert generator.worker_count_for(10) == 4


def test_default_worker_count_uses_detected_parallelism(config):
    assert ArtGenerator(config).max_workers == detect_parallelism() >= 1


def test_invalid_worker_count(config):
    with pytest.raises(ConfigError):
        ArtGenerator(config, max_workers=0)


def test_invalid_config_fails_before_start():
    with pytest.raises(ConfigError):
        ArtGenerator({"order": [], "width": 100, "height": 100})
    with pytest.raises(ConfigError):
        ArtGenerator({"order": ["bg"], "width": 0, "height": 100})


def test_zero_jobs_returns_immediately(traits_dir, assets_dir, config):
    report = ArtGenerator(config, max_workers=4).generate([], TraitDirectoryResolver(traits_dir), FileSink(assets_dir))

    assert report.total == 0
    assert report.worker_count == 0
    assert report.completed == []
    assert not assets_dir.exists()


def test_scenario_red_background_with_circle(traits_dir, assets_dir, config_file):
    report = create_generative_art(
        config_file,
        [{"id": 1, "bg": "red.png", "fg": "circle.png"}],
        traits_dir=traits_dir,
        assets_dir=assets_dir,
    )

    output = assets_dir / "0.png"
    assert report.completed == ["0.png"]
    assert output.exists()
    with Image.open(output) as img:
        image = img.convert("RGBA")
    assert image.size == (100, 100)
    assert_close(image.getpixel((1, 1)), RED)
    assert_close(image.getpixel((98, 98)), RED)
    assert_close(image.getpixel((50, 50)), BLUE)


def test_five_jobs_two_workers(traits_dir, config):
    sink = RecordingSink()

    report = ArtGenerator(config, max_workers=2).generate(make_sets(5), TraitDirectoryResolver(traits_dir), sink)

    assert report.worker_count == 2
    assert report.total == 5
    assert sorted(report.completed) == [f"{index}.png" for index in range(5)]
    assert len(report.completed) == len(set(report.completed))
    assert sorted(report.artifacts) == [f"{index}.png" for index in range(5)]
    assert all(name.startswith("art-worker") for name in sink.threads.values())
    assert report.failures == []


def test_missing_trait_fails_only_that_job(traits_dir, assets_dir, config):
    sets = make_sets(5)
    sets[2]["fg"] = "does-not-exist.png"

    report = ArtGenerator(config, max_workers=2).generate(
        sets, TraitDirectoryResolver(traits_dir), FileSink(assets_dir)
    )

    assert report.succeeded == 4
    assert report.failed == 1
    assert report.failed_ids() == [3]
    assert report.failures[0].error_type == "LoadError"
    assert report.failures[0].output_name == "2.png"
    assert sorted(p.name for p in assets_dir.iterdir()) == ["0.png", "1.png", "3.png", "4.png"]
    assert "Ids fallidos: [3]" in report.summary()


def test_many_jobs_are_each_processed_once(traits_dir, config):
    progress = []
    report = ArtGenerator(config, max_workers=4).generate(
        make_sets(24, bg="blue.png"),
        TraitDirectoryResolver(traits_dir),
        MapSink(),
        progress_callback=lambda done, total, message: progress.append((done, total)),
    )

    assert len(report.completed) == 24
    assert len(set(report.completed)) == 24
    assert sorted(done for done, _ in progress) == list(range(1, 25))
    assert all(total == 24 for _, total in progress)


def test_failing_progress_callback_does_not_stop_workers(traits_dir, config):
    def callback(done, total, message):
        raise RuntimeError("progress display closed")

    report = ArtGenerator(config, max_workers=2).generate(
        make_sets(4), TraitDirectoryResolver(traits_dir), MapSink(), progress_callback=callback
    )

    assert sorted(report.completed) == ["0.png", "1.png", "2.png", "3.png"]
    assert report.failures == []


def test_file_mode_is_idempotent(traits_dir, tmp_path, config_file):
    sets = make_sets(3)
    create_generative_art(config_file, sets, traits_dir=traits_dir, assets_dir=tmp_path / "a", max_workers=2)
    create_generative_art(config_file, sets, traits_dir=traits_dir, assets_dir=tmp_path / "b", max_workers=3)

    for index in range(3):
        assert (tmp_path / "a" / f"{index}.png").read_bytes() == (tmp_path / "b" / f"{index}.png").read_bytes()


def test_caller_list_is_not_consumed(traits_dir, assets_dir, config):
    sets = make_sets(3)
    ArtGenerator(config, max_workers=2).generate(sets, TraitDirectoryResolver(traits_dir), FileSink(assets_dir))
    assert len(sets) == 3


def test_missing_config_file_is_config_error(tmp_path, traits_dir):
    with pytest.raises(ConfigError):
        create_generative_art(tmp_path / "nope.json", make_sets(1), traits_dir=traits_dir, assets_dir=tmp_path)


# ----------------------------------------------------------------------
# Buffer mode
# ----------------------------------------------------------------------
def test_buffer_mode_with_files_table():
    files = {"bg": {"red": solid(RED), "green": solid(GREEN)}, "fg": {"circle": circle()}}
    sets = [
        {"id": 1, "bg": "red", "fg": "circle"},
        {"id": 2, "bg": "green", "fg": "circle"},
    ]

    results = create_generative_art_objects(
        {"order": ["bg", "fg"], "width": 100, "height": 100}, sets, files, max_workers=2
    )

    assert sorted(results) == ["0.png", "1.png"]
    assert_close(_decode(results["0.png"]).getpixel((2, 2)), RED)
    assert_close(_decode(results["1.png"]).getpixel((2, 2)), GREEN)
    assert_close(_decode(results["1.png"]).getpixel((50, 50)), BLUE)


def test_buffer_mode_with_direct_sources(traits_dir):
    sets = [{"id": 4, "bg": traits_dir / "bg" / "blue.png", "fg": traits_dir / "fg" / "circle.png"}]

    report = generate_art_objects({"order": ["bg", "fg"], "width": 50, "height": 50}, sets)

    image = _decode(report.artifacts["3.png"])
    assert image.size == (50, 50)
    assert_close(image.getpixel((1, 1)), BLUE)


def test_buffer_mode_reports_unknown_sources():
    files = {"bg": {"red": solid(RED)}, "fg": {"circle": circle()}}
    sets = [{"id": 1, "bg": "red", "fg": "circle"}, {"id": 2, "bg": "purple", "fg": "circle"}]

    report = generate_art_objects({"order": ["bg", "fg"], "width": 20, "height": 20}, sets, files)

    assert sorted(report.artifacts) == ["0.png"]
    assert report.failed_ids() == [2]
