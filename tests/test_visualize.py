import numpy as np
from PIL import Image

from tilescope.attention.overlap import GroundTruthBox
from tilescope.attention.tiles import ScoredTile, SelectedTile, SelectionReason
from tilescope.attention.visualize import overlay_filename, render_overlay, save_overlay, save_selected_tiles


def selected_at(x, y, score=0.42):
    tile = ScoredTile(x=x, y=y, size=128, histogram=np.zeros(3), divergence=0.1, combined_score=score, smoothed_score=score)
    return SelectedTile(tile=tile, reason=SelectionReason.EXPLOIT)


def gray_image():
    return np.full((512, 512, 3), 0.5, dtype=np.float32)


def test_overlay_marks_tiles_and_ground_truth():
    canvas = render_overlay(
        gray_image(),
        [selected_at(0, 0)],
        patch_size=128,
        ground_truth=GroundTruthBox(x=300, y=300, width=100, height=100),
    )

    assert canvas.size == (512, 512)
    assert canvas.mode == "RGB"
    red, green, _ = canvas.getpixel((100, 100))
    assert red > 150 and green < 100
    assert canvas.getpixel((300, 350)) == (0, 0, 255)
    assert canvas.getpixel((250, 250)) == (128, 128, 128)


def test_overlay_respects_top_k():
    canvas = render_overlay(gray_image(), [selected_at(0, 0), selected_at(384, 384)], patch_size=128, top_k=1)
    assert canvas.getpixel((500, 500)) == (128, 128, 128)


def test_overlay_filename_format():
    assert overlay_filename("leaf", (0.3, 0.4, 0.3), 0.2) == "leaf_lam0.30-0.40-0.30_eps0.2.png"
    assert overlay_filename("leaf", None, 0.0) == "leaf_lamna_eps0.png"


def test_save_overlay(tmp_path):
    canvas = render_overlay(gray_image(), [selected_at(64, 64)], patch_size=128)
    path = save_overlay(canvas, tmp_path / "vis", "leaf", (0.3, 0.4, 0.3), 0.2)

    assert path == tmp_path / "vis" / "leaf_lam0.30-0.40-0.30_eps0.2.png"
    with Image.open(path) as saved:
        assert saved.size == (512, 512)


def test_save_selected_tiles(tmp_path):
    image = gray_image()
    image[64:192, 128:256] = 1.0

    paths = save_selected_tiles(image, [selected_at(128, 64)], tmp_path, "leaf")

    assert paths == [tmp_path / "tile_leaf_128_64.png"]
    with Image.open(paths[0]) as saved:
        assert saved.size == (128, 128)
        assert saved.getpixel((10, 10)) == (255, 255, 255)
