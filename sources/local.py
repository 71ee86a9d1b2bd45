"""
Local directory image scanning.

Functions for finding images in local directories and reading their bytes.
"""

from pathlib import Path

from config import IMAGE_EXTENSIONS


def scan_local_images(path: str) -> list[Path]:
    """Find all image files in a directory or return a single image file.

    Args:
        path: Path to directory or single image file to scan.

    Returns:
        Sorted list of image file paths.

    Raises:
        ValueError: If path doesn't exist or isn't a valid image/directory.
    """
    file_path = Path(path).resolve()

    if file_path.is_file():
        if file_path.suffix.lower() in IMAGE_EXTENSIONS:
            return [file_path]
        raise ValueError(f"{path} is not a supported image file")

    if not file_path.is_dir():
        raise ValueError(f"{path} is not a valid file or directory")

    image_files = [
        p for p in file_path.iterdir()
        if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS
    ]
    return sorted(image_files)


def read_local_image(path: str | Path) -> bytes:
    """Read an image file's bytes.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    return Path(path).read_bytes()
