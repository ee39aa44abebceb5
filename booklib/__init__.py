"""
Personal book library.

Books made of ordered pages are stored in a relational database, in local
files, or in memory for tests. ``booklib.service.LibraryService`` sits above
the backends and handles fallback, deduplicated imports and permissions.
"""
