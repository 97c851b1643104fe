import os
import tempfile

# Banco SQLite descartável: precisa estar definido antes do import de db.py
_DB_PATH = os.path.join(tempfile.mkdtemp(prefix='propostas-test-'), 'app.db')
os.environ['DATABASE_URL'] = f'sqlite:///{_DB_PATH}'
