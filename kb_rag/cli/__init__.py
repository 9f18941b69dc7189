"""KB RAG command line entry points (kb-index, kb-search)"""
