"""Call state and WebRTC signalling helpers."""
