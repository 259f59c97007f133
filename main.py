#!/usr/bin/env python3
"""
main.py: quick-start entry point.

Pick the image in a folder closest to a colour and set it as wallpaper:

    python main.py directory ~/Pictures/Wallpapers 1e3a5f

Or search wallhaven.cc:

    python -m color_wallpaper.cli wallhaven --threshold 20 --last-page 5 '#1e3a5f'
"""

from color_wallpaper.cli import app

if __name__ == "__main__":
    app()
