"""Fragment data model: parser input types, fragments, the assembled group."""
