# CinePass auth API package
