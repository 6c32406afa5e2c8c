"""
Legacy Microsoft Word Extractor Package
=======================================

Text extraction for Word 97-2003 binary documents (.doc), which are stored
in an OLE2 Compound File. The package is split along the parsing stages:

    container     olefile adapter, random-access stream reads
    fib           File Information Block
    piece_table   CLX, piece table and piece byte ranges
    text_decoder  field/control handling and character mapping
    doc_extractor the pipeline and the read_doc / extract_text entry points
"""

from msdoc2text.extractors.ms_legacy.doc_extractor import extract_text, read_doc

__all__ = ["extract_text", "read_doc"]
