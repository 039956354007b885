"""
Loaders that persist candidate records.

Modules:
    batch_writer: All-or-nothing multi-row insert with race fallback
"""
