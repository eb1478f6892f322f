"""
hlsforge - adaptive-bitrate HLS packaging and serving.

Converts a source video into a ladder of HLS renditions, assembles the
multivariant (master) playlist, attaches audio/subtitle tracks and rewrites
stored playlists per request when serving them.
"""

__version__ = "0.1.0"
