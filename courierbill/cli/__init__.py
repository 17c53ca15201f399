"""Unified command-line interface for courier billing.

Usage:
    courierbill import <file.json> [--on-conflict keep_both|override|discard]
    courierbill bulk-import <files...> [--new-folder NAME]
    courierbill parse <pages...> [--hybrid]
    courierbill capture start --mode auto
    courierbill capture add page1.jpg page2.jpg --finish
    courierbill capture process
    courierbill serve [--port]
    courierbill list [--folder ID | --root | --recycle-bin]
    courierbill config set --slab1 3 --apply-to <manifest_id>
"""
