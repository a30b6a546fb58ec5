"""
Shared fixtures: sample OpenAPI documents and isolated configuration.
"""

import pytest

from config_logging import AppConfig, set_config, reset_config
from profiles import reset_profile_manager
from scan_history import reset_grade_history_db


REST_SPEC = """openapi: 3.0.3
info:
  title: Catalog API
  version: 1.0.0
  x-api-id: catalog_1718035200000_9f3c2a7b41d0e6f8
servers:
  - url: https://api.example.com/v1
security:
  - bearerAuth: []
components:
  securitySchemes:
    bearerAuth:
      type: http
      scheme: bearer
  schemas:
    Product:
      type: object
      example:
        id: p-1
paths:
  /api/v1/products:
    get:
      summary: List products
      parameters:
        - name: cursor
          in: query
          schema:
            type: string
        - name: limit
          in: query
          schema:
            type: integer
      responses:
        '200':
          description: OK
          headers:
            ETag:
              schema:
                type: string
    post:
      summary: Create a product
      requestBody:
        content:
          application/json:
            schema:
              $ref: '#/components/schemas/Product'
      responses:
        '201':
          description: Created
  /api/v1/products/{productId}:
    get:
      summary: Fetch one product
      parameters:
        - name: productId
          in: path
          required: true
          schema:
            type: string
      responses:
        '200':
          description: OK
          headers:
            ETag:
              schema:
                type: string
    put:
      summary: Replace a product
      requestBody:
        content:
          application/json:
            schema:
              $ref: '#/components/schemas/Product'
      responses:
        '200':
          description: OK
    delete:
      summary: Remove a product
      responses:
        '204':
          description: Deleted
"""

SAAS_SPEC = """openapi: 3.0.3
info:
  title: Tenant Console
  version: 2.0.0
  x-api-id: console_1718035200000_0a1b2c3d4e5f6a7b
security:
  - oauth: []
components:
  securitySchemes:
    oauth:
      type: oauth2
      flows:
        clientCredentials:
          tokenUrl: https://auth.example.com/token
          scopes:
            admin:users: Manage users
            read:billing: Read invoices
  parameters:
    OrganizationHeader:
      name: X-Organization-ID
      in: header
      required: true
      schema:
        type: string
paths:
  /admin/users:
    get:
      summary: List users
      parameters:
        - $ref: '#/components/parameters/OrganizationHeader'
        - name: cursor
          in: query
          schema:
            type: string
      responses:
        '200':
          description: OK
    post:
      summary: Invite a user
      parameters:
        - $ref: '#/components/parameters/OrganizationHeader'
      requestBody:
        content:
          application/json:
            schema:
              type: object
      responses:
        '201':
          description: Created
  /billing/invoices:
    get:
      summary: List invoices
      parameters:
        - name: cursor
          in: query
          schema:
            type: string
      responses:
        '200':
          description: OK
  /audit/entries:
    get:
      summary: List audit entries
      parameters:
        - $ref: '#/components/parameters/OrganizationHeader'
        - name: cursor
          in: query
          schema:
            type: string
      responses:
        '200':
          description: OK
"""

# Nothing profile-specific: detection stays below the floor
MINIMAL_SPEC = """{
  "openapi": "3.0.3",
  "info": {"title": "Thing", "version": "0.1.0"},
  "paths": {
    "/things": {
      "get": {
        "operationId": "listThings",
        "responses": {"200": {"description": "OK"}}
      }
    }
  }
}
"""


@pytest.fixture(autouse=True)
def isolated_config(tmp_path):
    """Fresh configuration per test; history goes to a temp database."""
    set_config(AppConfig(history_db_path=tmp_path / 'history.db'))
    reset_profile_manager()
    reset_grade_history_db()
    yield
    reset_config()
    reset_profile_manager()
    reset_grade_history_db()


@pytest.fixture
def rest_spec():
    return REST_SPEC


@pytest.fixture
def saas_spec():
    return SAAS_SPEC


@pytest.fixture
def minimal_spec():
    return MINIMAL_SPEC
