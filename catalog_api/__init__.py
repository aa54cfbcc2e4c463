"""Read API and retrieval-augmented chat over a written control catalog."""
