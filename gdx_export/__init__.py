"""
gdx_export - Archive tooling for GDx scan exports.

Each GDx export directory holds an SVG report and an XML file describing the
patient and exam.  This package renders the report to JPEG/PNG/PDF with
Inkscape and ImageMagick, names the outputs after the patient and exam date,
and moves them into a shared archive directory.

External converters
-------------------
Rendering is delegated to the Inkscape and ImageMagick executables shipped
under ``deps/`` on the clinic workstations rather than a Python SVG library:

1. The exports use fonts and filters that only Inkscape renders faithfully.
2. The same executables are already used for manual conversions, so archived
   files match what staff produced before.
"""

__version__ = "0.1.0"
