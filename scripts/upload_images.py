#!/usr/bin/env python3
"""Bulk-upload product images through the HTTP API.

Usage:
    python scripts/upload_images.py ./photos

Expects one sub-directory per product, named by product id:

    photos/42/front.jpg
    photos/42/back.png

Files are uploaded in name order; the first file of each product is marked
primary. Reads API_URL from the environment (default http://localhost:5000).
"""
import mimetypes
import os
import sys
from pathlib import Path

import httpx
from dotenv import load_dotenv

load_dotenv()

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".webp"}


def upload_product_dir(client, api_url, product_dir):
    product_id = int(product_dir.name)
    files = sorted(
        p for p in product_dir.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES
    )
    failures = 0
    for index, path in enumerate(files):
        mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        with path.open("rb") as fh:
            resp = client.post(
                f"{api_url}/api/images/upload/{product_id}",
                files={"image": (path.name, fh, mime_type)},
                data={"imageIndex": str(index), "isPrimary": "true" if index == 0 else "false"},
            )
        data = resp.json()
        if resp.status_code == 201:
            print(f"  {path.name}: {data.get('message')}")
        else:
            failures += 1
            print(f"  {path.name}: HTTP {resp.status_code} {data.get('message')}")
    return len(files), failures


def main():
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)

    root = Path(sys.argv[1])
    if not root.is_dir():
        print(f"Error: {root} is not a directory")
        sys.exit(1)

    api_url = os.environ.get("API_URL", "http://localhost:5000").rstrip("/")
    total = failed = 0
    with httpx.Client(timeout=60.0) as client:
        for product_dir in sorted(root.iterdir()):
            if not product_dir.is_dir() or not product_dir.name.isdigit():
                continue
            print(f"Product {product_dir.name}")
            count, failures = upload_product_dir(client, api_url, product_dir)
            total += count
            failed += failures

    print(f"Uploaded {total - failed}/{total} images")
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
