"""usbprint - USB thermal receipt printer agent.

usbprint keeps a single logical connection to a USB ESC/POS receipt printer
alive across plug/unplug cycles and permission prompts, and turns text,
images and paper cuts into ESC/POS command streams.

Usage:
    usbprint devices
    usbprint print-text "Hello"
    usbprint print-image logo.png
    usbprint start
"""

__version__ = "0.1.0"
__author__ = "Giorgio Gilestro"
