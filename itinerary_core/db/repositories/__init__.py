"""
db/repositories/ — SQL functions over a psycopg2 connection.
"""
