"""rrdpipe command line interface"""
