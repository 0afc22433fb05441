"""Local snapshots, one-way sync plans and file-index bookkeeping."""