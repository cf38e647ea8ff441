"""Quest generator: a short dialog with a language model that ends in a quest list."""
