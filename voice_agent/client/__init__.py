"""Client-side conversation controller."""
