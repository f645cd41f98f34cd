"""HTTP surface for the GCSE revision tutor"""
