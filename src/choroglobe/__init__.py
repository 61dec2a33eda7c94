"""Dual-view choropleth renderer: globe texture and flat map."""
