from .dt import *
