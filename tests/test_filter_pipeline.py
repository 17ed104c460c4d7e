import numpy as np
import pytest

from conftest import decode, jpeg_bytes, noise, png_bytes, solid
from frame_grabber.frames.models import FilterConfig
from frame_grabber.imaging.pipeline import CACHE_CAPACITY, FilterPipeline, RenderCache, bitmap_key
from frame_grabber.imaging.sharpen import sharpen, sharpen_kernel
from frame_grabber.imaging.tone import apply_tone, is_neutral, tone_matrix


class TestTone:
    def test_neutral_matrix_is_identity(self):
        assert is_neutral(FilterConfig())
        assert np.allclose(tone_matrix(FilterConfig()), np.eye(3, 4))

    def test_brightness_scales(self):
        out = apply_tone(solid((60, 60, 60)), FilterConfig(brightness=200))
        assert (out == 120).all()

    def test_brightness_clamps(self):
        out = apply_tone(solid((200, 200, 200)), FilterConfig(brightness=200))
        assert (out == 255).all()

    def test_zero_contrast_is_mid_grey(self):
        out = apply_tone(noise(), FilterConfig(contrast=0))
        assert (out == 128).all()

    def test_full_grayscale_equalises_channels(self):
        # pure red in BGR
        out = apply_tone(solid((0, 0, 255)), FilterConfig(grayscale=100))
        assert (out == 54).all()

    def test_zero_saturation_equalises_channels(self):
        out = apply_tone(noise(), FilterConfig(saturation=0))
        assert (out[..., 0] == out[..., 1]).all()
        assert (out[..., 1] == out[..., 2]).all()

    def test_blur_smooths(self):
        img = noise()
        out = apply_tone(img, FilterConfig(blur=2))
        assert out.std() < img.std()

    def test_alpha_untouched(self):
        img = np.dstack([noise(), np.full((40, 40), 77, dtype=np.uint8)])
        out = apply_tone(img, FilterConfig(brightness=150, sepia=50))
        assert (out[..., 3] == 77).all()


class TestSharpen:
    def test_kernel_weights(self):
        k = sharpen_kernel("medium")
        assert k[1, 1] == 5
        assert k[0, 1] == k[1, 0] == k[1, 2] == k[2, 1] == -1
        assert k[0, 0] == 0
        assert k.sum() == 1

    def test_off_is_identity(self):
        img = noise()
        assert sharpen(img, "off") is img

    def test_borders_untouched(self):
        img = noise(seed=5)
        out = sharpen(img, "high")
        assert (out[0] == img[0]).all()
        assert (out[-1] == img[-1]).all()
        assert (out[:, 0] == img[:, 0]).all()
        assert (out[:, -1] == img[:, -1]).all()
        assert not (out[1:-1, 1:-1] == img[1:-1, 1:-1]).all()

    def test_flat_image_unchanged(self):
        img = solid((10, 100, 200))
        assert (sharpen(img, "high") == img).all()

    def test_interior_value(self):
        img = np.zeros((3, 3, 3), dtype=np.uint8)
        img[1, 1] = 60
        img[0, 1] = 20
        out = sharpen(img, "low")
        # 3 * 60 - 0.5 * 20
        assert (out[1, 1] == 170).all()

    def test_tiny_image_copied(self):
        img = noise(size=(2, 2))
        out = sharpen(img, "high")
        assert (out == img).all()
        assert out is not img


class TestRenderCache:
    def test_insertion_order_eviction(self):
        cache = RenderCache(capacity=2)
        cache.put(("a", 1), b"A")
        cache.put(("b", 1), b"B")
        assert cache.get(("a", 1)) == b"A"
        cache.put(("c", 1), b"C")
        # reading "a" did not protect it
        assert ("a", 1) not in cache
        assert ("b", 1) in cache
        assert len(cache) == 2

    def test_hit_and_miss_counters(self):
        cache = RenderCache()
        cache.get(("x", 0))
        cache.put(("x", 0), b"X")
        cache.get(("x", 0))
        assert (cache.hits, cache.misses) == (1, 1)

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            RenderCache(capacity=0)


class TestFilterPipeline:
    def test_no_filters_returns_input(self):
        data = png_bytes(noise())
        assert FilterPipeline().render(data, None) is data

    def test_neutral_png_is_lossless(self):
        img = noise(seed=1)
        out = FilterPipeline().render(png_bytes(img), FilterConfig())
        assert (decode(out) == img).all()

    def test_keeps_container_format(self):
        pipeline = FilterPipeline()
        assert pipeline.render(png_bytes(noise()), FilterConfig(sepia=20)).startswith(b"\x89PNG")
        assert pipeline.render(jpeg_bytes(noise()), FilterConfig(sepia=20)).startswith(b"\xff\xd8")

    def test_sharpening_off_equals_tone_only(self):
        img = noise(seed=2)
        filters = FilterConfig(brightness=120, contrast=90, saturation=140)
        out = decode(FilterPipeline().render(png_bytes(img), filters))
        assert (out == apply_tone(img, filters)).all()

    def test_sharpening_runs_after_tone(self):
        img = noise(seed=2)
        filters = FilterConfig(brightness=80, sharpening="medium")
        out = decode(FilterPipeline().render(png_bytes(img), filters))
        assert (out == sharpen(apply_tone(img, filters), "medium")).all()

    def test_unknown_sharpening_level_renders_unsharpened(self):
        img = noise(seed=4)
        filters = FilterConfig(contrast=110, sharpening="extreme")
        out = decode(FilterPipeline().render(png_bytes(img), filters))
        assert (out == apply_tone(img, filters)).all()

    def test_repeat_render_hits_cache(self):
        pipeline = FilterPipeline()
        data = png_bytes(noise())
        first = pipeline.render(data, FilterConfig(blur=1))
        second = pipeline.render(data, FilterConfig(blur=1))
        assert first is second
        assert pipeline.cache.hits == 1

    def test_dpi_is_part_of_cache_key(self):
        pipeline = FilterPipeline()
        data = png_bytes(noise())
        pipeline.render(data, FilterConfig(dpi=72))
        pipeline.render(data, FilterConfig(dpi=300))
        assert len(pipeline.cache) == 2

    def test_twenty_first_entry_evicts_first(self):
        pipeline = FilterPipeline()
        images = [png_bytes(noise(seed=i, size=(8, 8))) for i in range(CACHE_CAPACITY + 1)]
        filters = FilterConfig(brightness=110)
        for data in images:
            pipeline.render(data, filters)
        assert len(pipeline.cache) == CACHE_CAPACITY
        assert (bitmap_key(images[0]), filters) not in pipeline.cache
        assert (bitmap_key(images[1]), filters) in pipeline.cache

        misses = pipeline.cache.misses
        pipeline.render(images[0], filters)
        assert pipeline.cache.misses == misses + 1

    def test_undecodable_bytes_returned_unchanged(self):
        junk = b"definitely not an image"
        assert FilterPipeline().render(junk, FilterConfig(brightness=150)) == junk

    def test_corrupt_png_returned_unchanged(self):
        data = png_bytes(noise())
        broken = data[:40]
        assert FilterPipeline().render(broken, FilterConfig(brightness=150)) == broken

    def test_clear(self):
        pipeline = FilterPipeline()
        pipeline.render(png_bytes(noise()), FilterConfig(blur=1))
        pipeline.clear()
        assert len(pipeline.cache) == 0
