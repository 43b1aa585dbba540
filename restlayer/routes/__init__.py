"""
restlayer — Generated Routes
=============================

Route inventory:
    - model_cruds.py: create/retrieve/update/delete/search (+ bulk) routes
      derived from a CRUD collaborator's namespace and plural name.

Handlers stay thin: read the payload from the request, call the
collaborator, serialize the result.
"""
