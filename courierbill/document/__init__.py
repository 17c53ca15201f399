"""Manifest document codecs: interchange payloads, service results, archives."""
