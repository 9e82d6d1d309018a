"""Remote control and streamer for Kodi."""
