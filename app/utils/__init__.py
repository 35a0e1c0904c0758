"""
UTILITIES PACKAGE
=================

Helpers used by the models and services (no HTTP, no business logic):

  image_data - encode/parse data URIs and measure the decoded image size.
"""
