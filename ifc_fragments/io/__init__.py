"""Model file I/O: STL meshes, element manifests, summaries."""
