"""BookTone: batch generation of book tone recommendations."""
