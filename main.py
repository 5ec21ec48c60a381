#!/usr/bin/env python3
"""
gifclip - Main Entry Point
Turn a short window of a streaming-site video or a local file into an optimized GIF

Examples:
    python main.py convert --url https://youtu.be/VIDEO_ID --start 10 --duration 5
    python main.py convert --file clip.mp4 --start 0:03 --duration 2.5
    python main.py sweep
"""

import sys

# Force UTF-8 console output on Windows
if sys.platform.startswith('win'):
    for stream in (sys.stdout, sys.stderr):
        if hasattr(stream, 'reconfigure'):
            stream.reconfigure(encoding='utf-8')

from gifclip.cli import main

if __name__ == '__main__':
    main()
