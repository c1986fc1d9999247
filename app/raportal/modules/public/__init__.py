"""Public content: homepage sections, corporate ads and the media center."""
