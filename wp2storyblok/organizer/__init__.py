"""
Story organization: slug assignment, folder paths and output files.
"""
