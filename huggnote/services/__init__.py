"""Server-side services: prompt building, MusicGPT, order records, payments."""
